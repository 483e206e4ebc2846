import sys

from pesign_repackage.cli import main

sys.exit(main())
