import sys

from gcal_demo.cli import main

sys.exit(main())
