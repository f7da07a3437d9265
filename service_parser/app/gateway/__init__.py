"""
Agent gateway package.

Supervises the long-running agent gateway process and prepares the
on-disk state it reads at startup.
"""
