CONTRACT_VERSION = "1.0.0"

COMMAND_INTENTS = {
    "ActionResolutionEngine": ("execute", "execute_action"),
    "CooldownSweeper": ("sweep",),
    "CharacterService": ("create_character", "move_to_location"),
    "PlayerService": ("login",),
}

QUERY_INTENTS = {
    "ActionResolutionEngine": ("get_available_actions", "get_action_status"),
    "CharacterService": ("list_characters", "get_location_context", "get_inventory"),
}

CONTRACT_DTO_TYPES = (
    "ExecutionResult",
    "CharacterStateView",
    "ActionView",
    "CharacterSummaryView",
    "LocationContextView",
    "InventoryLineView",
)
