from .schemas import PublishRequest, PublishResponse, EchoResponse, JsonResponse, HealthResponse, StatsResponse
