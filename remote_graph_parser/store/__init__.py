# Copyright 2020-present Kensho Technologies, LLC.
"""Remote store adapters: the only place where the parser touches stored data.

The parser reads from a store exclusively through the three-method API of
the RemoteStoreAdapter class, so reading from a new store looks like this:
- Construct a subclass of RemoteStoreAdapter -- let's call it MyStoreAdapter.
- Add long-lived state such as API keys, connection pools, etc. as instance attributes
  of the MyStoreAdapter class.
- Implement find(), count() and get_by_id(), honoring the predicates described
  in the RemoteStoreAdapter docstring.
- Construct an instance of MyStoreAdapter and pass it to a QueryParser.

Two adapters are provided: one over in-memory data, and one over relational tables via SQLAlchemy.
"""
from .debugging import RecordedTrace, StoreAdapterTap, StoreOperation  # noqa
from .in_memory import InMemoryStoreAdapter  # noqa
from .predicates import EqualTo, GreaterThan, Include, Predicate, Select, split_predicates  # noqa
from .sql import SQLAlchemyStoreAdapter  # noqa
from .typedefs import Pointer, RawEntityRecord, RemoteStoreAdapter  # noqa
