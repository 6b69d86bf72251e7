"""
Prompt for summarizing a scanned mail document.
"""

PROMPT = """You are reading the scanned pages of a letter received by post.
Summarize it for the recipient in at most three sentences: who sent it, what it is about,
and any amount, deadline or action it asks for.
Reply with the summary only."""
