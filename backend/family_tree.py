"""Nested family tree built from person and relation rows."""


def parse_full_name(name):
    """'Mary Ann Smith' -> ('Mary Ann', 'Smith'); None when there is no last name."""
    parts = (name or '').split()
    if len(parts) < 2:
        return None
    return ' '.join(parts[:-1]), parts[-1]


def format_name(person):
    if person is None:
        return 'Unknown'
    return f"{person['first_name']} {person['last_name']}"


def format_couple_pair(person, spouse):
    genders = {person.get('gender'), spouse.get('gender')}
    if 'male' in genders and 'female' in genders:
        husband = person if person.get('gender') == 'male' else spouse
        wife = person if person.get('gender') == 'female' else spouse
        return {'husband': format_name(husband), 'wife': format_name(wife)}
    return {'husband': format_name(person), 'wife': format_name(spouse)}


def find_root(people, root_name=None):
    """Person dict matching `root_name` ('First Last'), or the first person when no name is given."""
    parsed = parse_full_name(root_name)
    if parsed is None:
        return people[0] if people else None
    first, last = parsed
    return next((p for p in people if p['first_name'] == first and p['last_name'] == last), None)


def build_family_tree(people, relations, root_id):
    """
    Descendant tree rooted at `root_id`.

    `people` are dicts with id/first_name/last_name/gender and `relations`
    dicts with from_person/to_person/relationship. A person reached twice is
    emitted once more as a '(cycle)' leaf and not expanded again.
    """
    people_by_id = {p['id']: p for p in people}
    children_by_id = {}
    spouses_by_id = {}
    for rel in relations:
        if rel['relationship'] == 'child':
            children_by_id.setdefault(rel['from_person'], []).append(rel['to_person'])
        elif rel['relationship'] == 'spouse':
            spouses_by_id.setdefault(rel['from_person'], []).append(rel['to_person'])

    visited = set()

    def _build(person_id):
        if person_id is None:
            return None
        if person_id in visited:
            return {'name': f"{format_name(people_by_id.get(person_id))} (cycle)"}
        visited.add(person_id)

        person = people_by_id.get(person_id)
        if person is None:
            return None

        node = {'name': format_name(person)}
        spouse_pairs = [
            format_couple_pair(person, people_by_id[sid])
            for sid in spouses_by_id.get(person_id, [])
            if sid in people_by_id
        ]
        if spouse_pairs:
            node['spousePairs'] = spouse_pairs
        children = [c for c in (_build(cid) for cid in children_by_id.get(person_id, [])) if c]
        if children:
            node['children'] = children
        return node

    return _build(root_id)
