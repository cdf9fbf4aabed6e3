"""
Queue engine module.
Contains admission control, the submission gateway, and the retry/DLQ state machine.
"""
