from fastapi import APIRouter, Request

from factgraph.api.v1.dependencies import ContainerDep
from factgraph.schemas.retrieval import ExplainPathRequest, GraphTraverseRequest
from factgraph.services.retrieval.graph_retrieval import GraphRetrievalService
from factgraph.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/traverse",
    summary="Neighborhood of seed entities",
    operation_id="graph_traverse",
)
async def traverse(body: GraphTraverseRequest, request: Request, container: ContainerDep):
    result = await GraphRetrievalService(container.neo4j).traverse(
        body.seed_entity_ids, edge_types=body.edge_types, depth=body.depth, limit=body.limit
    )
    return create_api_response(result, message="Traversal completed", request=request)


@router.post(
    "/explain",
    summary="Shortest path between two entities",
    operation_id="graph_explain_path",
)
async def explain_path(body: ExplainPathRequest, request: Request, container: ContainerDep):
    result = await GraphRetrievalService(container.neo4j).explain_path(
        body.from_entity_id, body.to_entity_id, edge_types=body.edge_types, max_hops=body.max_hops
    )
    message = "Path found" if result.edges else "No path within max_hops"
    return create_api_response(result, message=message, request=request)
