from cardkeeper.db.database import get_session, init_db
from cardkeeper.db.operations import (
    add_backup,
    add_card,
    add_collection,
    backup_to_record,
    card_from_model,
    card_to_model,
    collection_to_model,
    commit,
    count_cards,
    delete_all_cards,
    delete_backups,
    delete_seed_marker,
    find_collection_by_name,
    get_backup,
    get_card,
    get_collection,
    get_default_collection,
    get_seed_marker,
    list_backups,
    list_card_ids,
    list_cards,
    list_collections,
    remove_collection,
    set_seed_marker,
)

__all__ = [
    "add_backup",
    "add_card",
    "add_collection",
    "backup_to_record",
    "card_from_model",
    "card_to_model",
    "collection_to_model",
    "commit",
    "count_cards",
    "delete_all_cards",
    "delete_backups",
    "delete_seed_marker",
    "find_collection_by_name",
    "get_backup",
    "get_card",
    "get_collection",
    "get_default_collection",
    "get_seed_marker",
    "get_session",
    "init_db",
    "list_backups",
    "list_card_ids",
    "list_cards",
    "list_collections",
    "remove_collection",
    "set_seed_marker",
]
