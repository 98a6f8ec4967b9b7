"""data-refinery — Clean up messy spreadsheets: dedupe, tidy, export."""

__version__ = "0.3.1"

UNTITLED_HEADER = "Untitled"
