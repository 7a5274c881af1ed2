"""coze-proxy - an OpenAI-compatible front end for Coze bots and workflows.

Requests to ``/v1/chat/completions`` are served in one of three modes:

- chat: stateless single turn against a bot
- conversation: multi turn, backed by a Coze conversation object
- workflow: the last message becomes a workflow's ``input`` parameter

Example:
    >>> from cozeproxy.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=3000)
"""

__version__ = "0.1.0"
