# Fake implementations for testing

from .fake_object_store import FakeObjectStore

__all__ = ["FakeObjectStore"]
