import sys

from chromafield.cli import main

sys.exit(main())
