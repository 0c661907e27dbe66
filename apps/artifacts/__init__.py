"""
Artifacts app.

Run-scoped storage for the files stages hand to each other: the coverage report
(test → quality_scan) and the container image archive (build → deploy).

An artifact belongs to exactly one pipeline run, is downloaded at most once and
is deleted when the run finishes, whatever its outcome.
"""
