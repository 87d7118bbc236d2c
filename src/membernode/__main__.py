import sys

from membernode.cli import main

sys.exit(main())
