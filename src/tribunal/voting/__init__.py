"""
The community vote engine.

- **vote_lifecycle.py**: start, tally, complete and cancel votes
- **vote_store.py**: atomic store operations over the repositories
- **platform.py**: chat platform protocol and its py-cord implementation
- **weight_policy.py**, **cooldown_guard.py**, **sanctions.py**: the rules
- **vote_embed.py**: message renderings
- **errors.py**: precondition errors shown to users
"""
