# This module handles Context engineering

# +---------------------+
# |      Memory         |   (Persistent, session-partitioned)
# |---------------------|
# | Q&A pairs           |
# | Agent notes         |
# | Transcript store    |
# +---------------------+

# +---------------------+
# |      State          |   (Current, per session id)
# |---------------------|
# | Message log         |
# | Rolling summary     |
# | Display name        |
# | Turn counter        |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |           Context            |   (Assembled per inference call)
# |------------------------------|
# | System prompt (time, name,   |
# |   summary)                   |
# | Last N messages              |
# | Current user input           |
# | Capability results so far    |
# +------------------------------+
#         |
#         v
#   [LLM / capability call]
