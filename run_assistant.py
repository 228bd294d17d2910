#!/usr/bin/env python3
"""
🤖 Desktop Assistant Launcher

Quick start:
    ./run_assistant.py

With options:
    ./run_assistant.py --debug           # Enable debug mode
    ./run_assistant.py --no-audio        # Text only (no mic/speaker)
    ./run_assistant.py --config my.yaml  # Use custom config

At the prompt:
    Enter: talk
    /cancel: stop listening
    /prev, /next: browse results
    /quit: exit
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

if __name__ == "__main__":
    from desktop_assistant.app import main
    main()
