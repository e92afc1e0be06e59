import sys

from bytestream.cli import main

sys.exit(main())
