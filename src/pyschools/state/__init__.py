"""State layer.

The reconciliation engine is the only component allowed to change the
record collection. The merge rules live in :mod:`pyschools.state.collection`
and the reactive containers that expose the result in
:mod:`pyschools.state.signal`.
"""
