# Pydantic models for the design service: the DesignSpecification schema,
# session state, WebSocket messages and REST request/response bodies.
