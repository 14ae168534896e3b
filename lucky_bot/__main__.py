"""
Entry point for running the bot as a module.

Usage:
    python -m lucky_bot
"""

from lucky_bot.cli import main

if __name__ == "__main__":
    main()
