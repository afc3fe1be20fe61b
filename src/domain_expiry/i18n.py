"""
Internationalization (i18n) module for the domain expiry engine.

Provides translations for the expiry alert email and CLI messages in
German (de) and English (en).
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Expiry alert email
    "email.subject": {
        "de": "[Domain Expiry] Domain läuft bald ab: {domain}{days_suffix}",
        "en": "[Domain Expiry] Domain expiring soon: {domain}{days_suffix}",
    },
    "email.subject_days_left": {
        "de": " (noch {days_left} Tage)",
        "en": " ({days_left} days left)",
    },
    "email.heading": {
        "de": "Domain-Ablaufwarnung",
        "en": "Domain expiry reminder",
    },
    "email.domain": {
        "de": "Domain",
        "en": "Domain",
    },
    "email.expires_at": {
        "de": "Ablaufdatum (UTC)",
        "en": "Expiry date (UTC)",
    },
    "email.days_left": {
        "de": "Verbleibende Tage",
        "en": "Days left",
    },
    "email.threshold_days": {
        "de": "Schwelle (Tage)",
        "en": "Threshold (days)",
    },
    "email.accounts": {
        "de": "Verknüpfte Konten",
        "en": "Linked accounts",
    },
    "email.checked_at": {
        "de": "Geprüft am",
        "en": "Checked at",
    },

    # Email delivery errors
    "email.invalid_recipient": {
        "de": "Ungültige Empfängeradresse",
        "en": "Invalid recipient address",
    },
    "smtp.missing_setting": {
        "de": "SMTP nicht konfiguriert: {setting}",
        "en": "SMTP not configured: {setting}",
    },
    "smtp.incomplete_auth": {
        "de": "SMTP-Anmeldedaten unvollständig",
        "en": "SMTP credentials incomplete",
    },

    # CLI messages
    "cli.description": {
        "de": "Ablaufdaten von Domain-Registrierungen prüfen und Warnungen versenden",
        "en": "Resolve domain registration expiry dates and send alerts",
    },
    "cli.run_summary": {
        "de": "{users} Benutzer, {domains} Domains geprüft, {sent} gesendet, "
              "{failed} fehlgeschlagen, {suppressed} unterdrückt",
        "en": "{users} users, {domains} domains checked, {sent} sent, "
              "{failed} failed, {suppressed} suppressed",
    },
    "cli.run_skipped": {
        "de": "Lauf übersprungen: ein anderer Lauf ist aktiv",
        "en": "Run skipped: another run is in progress",
    },
    "cli.config_error": {
        "de": "Konfigurationsfehler: {error}",
        "en": "Configuration error: {error}",
    },
    "cli.users_file_error": {
        "de": "Benutzerdatei konnte nicht gelesen werden: {error}",
        "en": "Could not read users file: {error}",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'email.heading')
        language: Language code ('de' or 'en'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.

    Examples:
        >>> get_message('email.days_left', 'de')
        'Verbleibende Tage'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            pass

    return message


def get_missing_translations(language: str) -> set[str]:
    """Get the message keys that have no translation for a language."""
    return {
        key for key, translations in TRANSLATIONS.items()
        if language not in translations
    }
