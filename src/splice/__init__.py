"""splice — core of a non-linear video editor.

Clips on z-ordered tracks, keyframed transforms and masks, editing
operations with undo, and a deterministic export loop that renders
exactly what the preview shows. Projects are declared in YAML files.
"""
