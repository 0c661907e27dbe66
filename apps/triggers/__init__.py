"""
Triggers app.

Turns repository events (GitHub webhooks, or a plain JSON payload from any
other source) into pipeline runs, applying the trigger rules: which events,
which target branches, and which changed paths are ignored.
"""
