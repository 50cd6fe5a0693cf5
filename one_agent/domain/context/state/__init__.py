# State = everything needed to continue a conversation in this process.

# One Session per conversation id:

# Message log (append-only, front-truncated only after summarization)

# Rolling summary of messages that left the log

# Display name and turn counter

# The registry hands a Session to exactly one turn at a time; a second
# request for the same id waits on the per-session lock.
