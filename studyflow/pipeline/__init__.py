"""
The flow pipeline: schemas, media references, tools, conversation context
and the executor that ties them to a model call.
"""
