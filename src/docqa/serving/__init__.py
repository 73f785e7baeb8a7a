"""
Serving — FastAPI application, query service and startup wiring.

Every collaborator is built once by :func:`~docqa.serving.bootstrap.build_services`
and injected into both the ingestion controller and the query handler.
"""
