"""
Todo sync backend package.

Serves todo records and runs editing sessions that keep the to-do nodes of
rich-text documents synchronized with a remote store. The FastAPI app lives in
``todosync.main``.
"""
