# Clients for external systems: the OpenAI chat completions API and the
# optional Redis channel that mirrors design events.
