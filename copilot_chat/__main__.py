import sys

from copilot_chat.cli import main

sys.exit(main())
