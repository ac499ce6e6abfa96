# repairhub/workers/__init__.py
"""
Celery background tasks.
Celery loads repairhub.workers.tasks itself via the ``-A`` flag.
"""
__all__: list[str] = ["tasks"]
