"""Graph projection vocabulary and Cypher templates."""

import re

# Predicates the extraction pipeline may store and the graph may traverse
ALLOWED_EDGE_TYPES = ["BENEFITS_FROM", "EXPOSED_TO", "SUPPLIES_TO", "IMPACTS"]

ENTITY_TYPE_LABELS = {
    "company": "Company",
    "instrument": "Instrument",
    "sector": "Sector",
    "country": "Country",
    "event": "Event",
    "concept": "Concept",
    "indicator": "Indicator",
}

MENTION_CONFIDENCE = 0.6

# Relationship types are interpolated into Cypher, so they must be plain identifiers
RELATIONSHIP_TYPE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{0,63}$")


UPSERT_ENTITIES_QUERY = """
UNWIND $rows AS row
MERGE (n:Entity {{entityId: row.id}})
SET n:{label}
SET n.name = row.name,
    n.type = row.type
"""

UPSERT_FILING_QUERY = """
MERGE (f:Filing {documentId: $filing.documentId})
SET f.cik = $filing.cik,
    f.accessionNo = $filing.accessionNo,
    f.docType = $filing.docType,
    f.filingDate = $filing.filingDate
"""

UPSERT_CHUNKS_QUERY = """
MATCH (f:Filing {documentId: $documentId})
UNWIND $rows AS row
MERGE (c:Chunk {chunkId: row.id})
SET c.documentId = row.documentId,
    c.chunkIndex = row.chunkIndex
MERGE (f)-[:HAS_CHUNK]->(c)
"""

UPSERT_MENTIONS_QUERY = """
UNWIND $rows AS row
MATCH (c:Chunk {chunkId: row.chunkId})
MATCH (e:Entity {entityId: row.entityId})
MERGE (c)-[r:MENTIONS]->(e)
SET r.confidence = row.confidence,
    r.sourceDocumentId = row.sourceDocumentId,
    r.validFrom = row.validFrom
"""

UPSERT_ASSERTION_EDGES_QUERY = """
UNWIND $rows AS row
MATCH (s:Entity {{entityId: row.subjectEntityId}})
MATCH (o:Entity {{entityId: row.objectEntityId}})
MERGE (s)-[r:{rel_type} {{assertionId: row.assertionId}}]->(o)
SET r.confidence = row.confidence,
    r.sourceDocumentId = row.sourceDocumentId,
    r.sourceChunkId = row.sourceChunkId,
    r.validFrom = row.validFrom,
    r.validTo = row.validTo,
    r.status = row.status
RETURN count(r) AS upserted
"""

CLOSE_ASSERTION_EDGES_QUERY = """
UNWIND $ids AS assertionId
MATCH ()-[r]->()
WHERE r.assertionId = assertionId
SET r.validTo = $validTo,
    r.status = $status
RETURN count(r) AS updated
"""

# Each segment is returned as a map so result.data() keeps labels and types
SEGMENTS_PROJECTION = """
[r IN relationships(p) | {{
    type: type(r),
    properties: properties(r),
    start: {{labels: labels(startNode(r)), properties: properties(startNode(r))}},
    end: {{labels: labels(endNode(r)), properties: properties(endNode(r))}}
}}] AS segments
"""

TRAVERSE_QUERY_TEMPLATE = (
    "MATCH p=(s:Entity)-[:{edge_union}*1..{depth}]-(n:Entity)\n"
    "WHERE s.entityId IN $seeds\n"
    "WITH p LIMIT toInteger($limit)\n"
    "RETURN " + SEGMENTS_PROJECTION
)

EXPLAIN_PATH_QUERY_TEMPLATE = (
    "MATCH p=shortestPath((a:Entity {{entityId: $from}})-[:{edge_union}*..{max_hops}]-(b:Entity {{entityId: $to}}))\n"
    "WITH p LIMIT 1\n"
    "RETURN " + SEGMENTS_PROJECTION
)
