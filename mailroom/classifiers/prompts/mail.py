"""
Prompt for classifying scanned mail by sender and document title.
"""

PROMPT = """Classify the mail based on the sender "{sender}" and title "{title}".
Return one of the following categories: Invoice, Bank, Government, Personal, Legal, Marketing, Other.
Reply with the category name only."""
