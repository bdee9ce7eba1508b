#!/usr/bin/env python
"""
Console interface for ontograph
"""

import asyncio
import json
import logging
from typing import Optional

from ingestion.models import TypeTransformation
from ontograph.config import Config
from ontograph.errors import OntographError
from ontograph.ontology import format_ontology
from ontograph.services import Services


async def print_ontology(services: Services, container_id: str):
    """Display a container's ontology"""
    metatypes = await services.ontology.list_metatypes(container_id)
    pairs = await services.ontology.list_relationship_pairs(container_id)
    print(format_ontology(metatypes, pairs))


async def print_schema(services: Services, container_id: str):
    print(await services.query.print_schema(container_id))


async def run_query(services: Services, container_id: str):
    """Read a GraphQL query, terminated by an empty line, and print the result"""
    lines = []
    while True:
        line = input("> " if not lines else "  ")
        if not line.strip():
            break
        lines.append(line)
    if not lines:
        print("No query entered.")
        return

    result = await services.query.execute(container_id, "\n".join(lines))
    if result.errors:
        for error in result.errors:
            print(f"Error: {error.message}")
    print(json.dumps(result.data, indent=2, default=str))


async def create_data_source(services: Services, container_id: str):
    name = input("Enter data source name: ")
    source = await services.ingestion.create_data_source(container_id, name, user_id='console')
    print(f"Created data source: {source.id}")


async def ingest_file(services: Services):
    """Ingest a JSON file holding one payload or a list of payloads"""
    data_source_id = input("Enter data source id: ")
    file_path = input("Enter file path: ")
    with open(file_path, 'r') as f:
        data = json.load(f)
    payloads = data if isinstance(data, list) else [data]

    report = await services.ingestion.ingest(data_source_id, payloads, user_id='console')
    print(f"Import {report.import_id}: staged {report.staged} payloads, "
          f"{report.awaiting_mapping} awaiting a type mapping")
    print(f"Created {len(report.nodes)} nodes and {len(report.edges)} edges")
    if report.awaiting_mapping:
        print("Use 'Configure Type Mapping' to add transformations and activate the new mappings.")
    for failure in report.failures:
        print(f"Failed: {failure.error}")


async def configure_type_mapping(services: Services):
    """Attach transformations from a JSON file to a type mapping and activate it"""
    data_source_id = input("Enter data source id: ")
    mappings = await services.type_mappings.list(data_source_id=data_source_id)
    if not mappings:
        print("No type mappings yet. Ingest a payload first.")
        return
    for mapping in mappings:
        state = "active" if mapping.active else "inactive"
        print(f"- {mapping.id} ({state}, {len(mapping.transformations)} transformations)")

    mapping = await services.type_mappings.find_by_id(input("Enter type mapping id: ").strip())
    file_path = input("Enter transformations file path: ")
    with open(file_path, 'r') as f:
        data = json.load(f)
    items = data if isinstance(data, list) else [data]

    mapping.add_transformation(*(TypeTransformation.from_dict(item) for item in items))
    mapping.active = True
    await services.type_mappings.save(mapping, 'console')
    print(f"Activated type mapping {mapping.id} with {len(mapping.transformations)} transformations")


async def run_console(services: Services):
    logger = logging.getLogger(__name__)
    container_id = input("Enter container id: ").strip()

    while True:
        print("\nOntograph Console")
        print("1. View Ontology")
        print("2. Print GraphQL Schema")
        print("3. Run GraphQL Query")
        print("4. Create Data Source")
        print("5. Ingest JSON File")
        print("6. Configure Type Mapping")
        print("7. Exit")

        choice = input("\nEnter your choice (1-7): ")

        try:
            if choice == "1":
                await print_ontology(services, container_id)

            elif choice == "2":
                await print_schema(services, container_id)

            elif choice == "3":
                await run_query(services, container_id)

            elif choice == "4":
                await create_data_source(services, container_id)

            elif choice == "5":
                await ingest_file(services)

            elif choice == "6":
                await configure_type_mapping(services)

            elif choice == "7":
                print("Exiting...")
                break

            else:
                print("Invalid choice. Please try again.")

        except OntographError as e:
            logger.error(f"Error: {e}")
        except (OSError, ValueError) as e:
            logger.error(f"Error reading input: {e}")
        except Exception as e:
            logger.error(f"Unexpected error: {e}")


async def _main(services: Optional[Services]):
    services = services or Services.from_config()
    await services.connect()
    try:
        await run_console(services)
    finally:
        # the local backend persists its file on disconnect
        await services.close()


def main(services: Optional[Services] = None):
    logging.basicConfig(level=Config.log_level())
    asyncio.run(_main(services))


if __name__ == "__main__":
    main()
