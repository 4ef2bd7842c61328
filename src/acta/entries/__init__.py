"""Journal entries stored as delimited blocks in per-day Markdown files.

Layout:
    <data_dir>/
    ├── 2026-02-17.md      # "# 2026-02-17" heading + entry blocks
    └── 2026-02-18.md

Files are plain Markdown so they stay readable and editable outside Acta.
"""
