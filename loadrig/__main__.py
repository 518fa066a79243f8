import sys

from loadrig.cli import main

sys.exit(main())
