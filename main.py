#!/usr/bin/env python

"""
Meter - Tray App Entry Point

Time tracking with Pomodoro cycles and invoicing. The same timer is
available from the command line through the `meter` command.

Usage:
    python main.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from meter.ui import SystemTrayApp


def main():
    """Main entry point"""
    app = SystemTrayApp()
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
