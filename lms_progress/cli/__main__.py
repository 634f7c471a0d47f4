import sys

from lms_progress.cli import main

sys.exit(main())
