"""
Services

- configuration: hierarchical configuration resolver
- providers: content, video and audio provider variants
- ai_models: selection, health, invocation and the AIModelManager facade
- cost: cost estimation and daily spend tracking
- admin: FastAPI inspection/override server
"""
