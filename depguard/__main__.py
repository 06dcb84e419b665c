import sys

from depguard.cli import main

sys.exit(main())
