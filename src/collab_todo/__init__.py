"""
Collaborative Todo Backend package.

The FastAPI application lives in collab_todo.main (collab_todo.main:app).
The domain components (directory, groups, tasks, visibility) import nothing
from FastAPI and can be used on their own through collab_todo.services.
"""

__version__ = "0.1.0"
