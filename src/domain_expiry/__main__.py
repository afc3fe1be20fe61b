import sys

from domain_expiry.cli import main

sys.exit(main())
