"""
Veo Relay Services

- video_generation: Gemini/Veo remote job client and result extraction
- operations: operation store, polling tracker and relay facade
- api: FastAPI request handlers
"""
