"""Pipeline services: model registry, RAG orchestration and chat."""
