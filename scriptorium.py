#!/usr/bin/env python3
"""
Scriptorium CLI - split, transcribe and translate manuscript scans

Run `scriptorium --help` for the command namespaces.
"""

from cli import main


if __name__ == "__main__":
    main()
