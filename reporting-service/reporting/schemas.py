import json
from pathlib import Path


def load_schema(filename):
    # Get the directory containing this file, then navigate to schemas directory
    current_file = Path(__file__)
    schemas_dir = current_file.parent / 'schemas'
    file_path = schemas_dir / filename

    with open(file_path, 'rt') as file:
        schema = json.load(file)
    # replace $id prop with absolute path to the file
    # this allows jsonschema to locate  $ref URIs
    if '$id' in schema:
        schema['$id'] = 'file://' + str(schemas_dir.resolve() / schema['$id'])
    return schema


# report schemas
schema_report_put = load_schema('report_put.json')
