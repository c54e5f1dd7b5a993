import sys

from hms_tables.console import main

sys.exit(main())
