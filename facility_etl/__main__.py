import sys

from facility_etl.cli.etl_cli import main

sys.exit(main())
