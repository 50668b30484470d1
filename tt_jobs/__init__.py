"""Single-user job timer with daily per-job totals."""
