"""
Services layer.

Capability interfaces consumed by the conversation engine, the transaction
orchestrator and concrete directory/wallet/history implementations. Import
concrete services from their modules.
"""
