"""
permsync.sync - Permission reconciliation and replay

Data model, reconciler, sync executor and the engine tying them together.
"""
