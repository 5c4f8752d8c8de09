"""
CLI Client Module.

Command-line client built with Typer and Rich over the NoteStore API.

Architecture:
- CLI is a thin presentation layer
- All business logic lives in the store
- Every command opens the store, runs one operation and closes it
- Log records carry source=cli

Usage:
    notestore --help
    notestore db info
    notestore search query "meeting notes"
    notestore settings export backup.json
"""
