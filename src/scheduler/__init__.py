"""Template scheduling: calculation, timers, firings and commands."""
