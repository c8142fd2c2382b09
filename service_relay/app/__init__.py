"""
Relay Service package.

Brokers transcription relay tokens for the CMS and bridges browser audio to
the speech-to-text provider. Key modules include:

- app.main: FastAPI app and HTTP/WebSocket endpoints
- app.auth: Shared-secret guard for server-to-server calls
- app.tokens: Single-use token store and issuer
- app.relay: Relay session state machine, envelopes, upstream connector
- app.daily: Client for the recording provider REST API
"""
