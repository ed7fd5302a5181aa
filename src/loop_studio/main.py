#!/usr/bin/env python
"""
Loop Studio - Main Entry Point

This application finds loops in audio files, auditions them with live
effects and renders extended versions by repeating a chosen loop.
"""
import logging
import sys
import traceback
from typing import List, Optional

from rich.console import Console
from rich.text import Text

from loop_studio.app import LoopStudioApp, parse_arguments
from loop_studio.fs import FS
from loop_studio.logging_manager import LoggingManager

MESSAGE_STYLES = {
    "positive": "green",
    "negative": "red",
    "info": "blue",
}


def print_message(message: str, message_type: str, console: Optional[Console] = None) -> None:
    """
    Prints a message with a specific type indicator.

    :param message: The message to print.
    :param message_type: The type of message ('positive', 'negative', 'info').
    :param console: Console to print to, stderr by default.
    """
    console = console or Console(stderr=True)
    text = Text("[ ", style="magenta")
    text.append(f"* {message}", style=MESSAGE_STYLES.get(message_type, "blue"))
    console.print(text)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the application.

    Sets up logging and launches the application.
    """
    args = parse_arguments(argv)

    # Initialize file system
    fs = FS(args.data_dir)

    # Configure logging
    log_file = fs.logs_folder / "app.log"
    logging_manager = LoggingManager(log_file)
    logging_manager.setup(level=getattr(logging, args.log_level))

    try:
        app = LoopStudioApp(args, fs)
        app.run()
    except Exception as e:
        # Log any unhandled exceptions
        logging.error(f"Unhandled exception: {e}")
        logging.error(traceback.format_exc())
        print_message(f"Error: {e}", "negative")
        sys.exit(1)
    finally:
        # Ensure logging is properly shut down
        logging_manager.shutdown()


if __name__ == "__main__":
    main()
