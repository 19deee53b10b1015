"""
Script para calcular matches de una demanda.

Equivalente de línea de comandos a POST /match y POST /match/refresh.
Imprime el resultado como JSON.

Uso:
    python -m propmatch.scripts.run_matching --demand-id <id>
    python -m propmatch.scripts.run_matching --demand-id <id> --refresh
    python -m propmatch.scripts.run_matching --demand-id <id> --history
"""

import argparse
import asyncio
import json
import sys

import structlog

from propmatch.config import get_settings
from propmatch.container import build_container
from propmatch.errors import BadRequestError, NotFoundError
from propmatch.logging_config import configure_logging

logger = structlog.get_logger()


async def run_matching(demand_id: str, refresh: bool = False, history: bool = False) -> dict:
    """
    Calcula (o recalcula) los matches de una demanda.

    Returns:
        Resultado serializable a JSON
    """
    async with await build_container() as container:
        engine = container.engine

        if history:
            records = await engine.get_match_history(demand_id)
            return {
                "demand_id": demand_id,
                "total": await engine.count_matches(demand_id),
                "history": [record.model_dump(mode="json") for record in records],
            }

        if refresh:
            result = await engine.refresh_matches(demand_id)
        else:
            result = await engine.compute_matches(demand_id)

        return result.model_dump(mode="json")


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Calcula matches de una demanda")
    parser.add_argument("--demand-id", required=True, help="ID de la demanda")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Regenerar el embedding de la demanda y reemplazar el historial",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="Mostrar el historial de matches guardado",
    )
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    logger.info("Iniciando matching...", demand_id=args.demand_id, refresh=args.refresh)

    try:
        output = asyncio.run(run_matching(args.demand_id, args.refresh, args.history))
        print(json.dumps(output, ensure_ascii=False, indent=2))
        sys.exit(0)

    except NotFoundError as e:
        logger.error("Demanda no encontrada", demand_id=e.resource_id)
        sys.exit(3)
    except BadRequestError as e:
        logger.error("Restricciones inválidas", error=str(e))
        sys.exit(4)
    except KeyboardInterrupt:
        logger.info("Matching interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en matching", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
