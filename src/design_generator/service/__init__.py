# Core of the design service: prompt composition, generation through the
# external model, the in-memory session/history store and the WebSocket
# request router.
