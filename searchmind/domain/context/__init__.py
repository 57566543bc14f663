# This module assembles the context each turn runs with

# +---------------------------+
# |   Institutional memory    |   (Persistent, embedded, consolidated while idle)
# |---------------------------|
# | Episodic turn records     |
# | Semantic/procedural facts |
# | Action log, skills        |
# +---------------------------+

# +---------------------------+
# |     Property state        |   (Current, from the analytics store)
# |---------------------------|
# | Site URL, owner           |
# | Clicks (30d)              |
# | Declining pages           |
# +---------------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |         Agent context        |   (Assembled per turn)
# |------------------------------|
# | Top memories by hybrid score |
# |   (similarity + recency)     |
# | Property summary             |
# | Current message              |
# +------------------------------+
#         |
#         v
#   [router / agents / tools]
