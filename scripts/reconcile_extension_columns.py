import argparse

from extension_fields.database import SessionLocal
from extension_fields.schemas import OrphanAction
from extension_fields.services.orphan_reconciliation import reconcile_orphan_columns


def reconcile(action: OrphanAction, actor: str | None = None) -> None:
    with SessionLocal() as session:
        orphans = reconcile_orphan_columns(session, action, actor=actor)

    if not orphans:
        print("No orphan extension columns found.")
        return

    for orphan in orphans:
        inferred = orphan.data_type.value if orphan.data_type else "unknown"
        print(
            f"{orphan.entity_type}: {orphan.table_name}.{orphan.column_name} "
            f"{orphan.physical_type} (inferred {inferred})"
        )

    if action is OrphanAction.REPORT:
        print(f"Found {len(orphans)} orphan column(s); rerun with --action retire or register to resolve.")
    else:
        print(f"Applied '{action.value}' to {len(orphans)} orphan column(s).")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Find extension columns present in the database but missing from the catalog."
    )
    parser.add_argument(
        "--action",
        default=OrphanAction.REPORT.value,
        choices=[action.value for action in OrphanAction],
        help="report only, retire (hide and block the name) or register as active fields",
    )
    parser.add_argument("--actor", default=None, help="Audit name recorded on the version bump")

    args = parser.parse_args()
    reconcile(OrphanAction(args.action), actor=args.actor)


if __name__ == "__main__":
    main()
