"""
Video generation pipeline package.

Modules:
    models        : Job, Scene and request schemas
    job_store     : guarded persistence for jobs
    capabilities  : script/speech/image/render interfaces
    script_gen    : Gemini script generator
    remote        : HTTP speech, image and render clients
    orchestrator  : GenerationPipeline
"""
