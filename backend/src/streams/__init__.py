from .endpoint import StreamEndpoint, StreamState, StreamClosedError
