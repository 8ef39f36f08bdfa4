import sys

from yoga_admin.cli import main

sys.exit(main())
