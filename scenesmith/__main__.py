import sys

from scenesmith.cli import main

sys.exit(main())
