"""
llmchess-play package.

Components:
- prompting: difficulty personas and the system/user prompt pair for a position
- llm_client: OpenAI-compatible transport (direct or via the local proxy) and error classification
- move_validator: response extraction and the legality gate with random fallback
- retry/acquisition: exponential backoff with jitter around one move request
- referee/session: python-chess game state and the human-vs-model game flow
- server: Flask proxy and game API
"""
# Package exports are intentionally minimal; import modules directly as needed.
