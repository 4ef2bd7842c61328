"""AI conversation support — drives an external AI CLI one turn at a time.

Layout:
    base.py       # CliFlavor, Turn, ReadResult, session errors
    protocol.py   # JSONL event parsing for the structured CLI flavor
    runner.py     # subprocess spawn + buffered stdout/stderr capture
    session.py    # SessionManager: registry, prompt assembly, poll/drain
"""
