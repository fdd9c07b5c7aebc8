import sys

from supplyprov.cli import main

sys.exit(main())
