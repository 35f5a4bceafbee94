import sys

from campussync.cli import main

sys.exit(main())
