import sys

from advisorylock.cli import main

sys.exit(main())
