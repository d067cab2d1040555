from . import Rules, TableRule


class RulesSemanticAnalyzer:
    """Checks parsed rules for errors that span more than one rule."""

    def check(self, rules: Rules) -> Rules:
        """
        Add errors to table rules that duplicate an earlier table rule, or that
        reference a parent table with no table rule.

        Args:
            rules (Rules): The parsed rules.

        Returns:
            Rules: The same rules, with any errors found added.
        """
        tables: dict[str, int] = {}
        for rule in rules.get_rules():
            if not isinstance(rule, TableRule) or not rule.table_name:
                continue
            if rule.table_name in tables:
                rule.add_error(
                    f'Duplicate table rule for table "{rule.table_name}" on line {rule.line_number}'
                    f' (previously defined on line {tables[rule.table_name]}): "{rule.line}"'
                )
            else:
                tables[rule.table_name] = rule.line_number

        for rule in rules.get_rules():
            if isinstance(rule, TableRule) and rule.rows_type and not rule.is_root_table():
                if rule.parent_table not in tables:
                    rule.add_error(
                        f'Parent table "{rule.parent_table}" undefined for table "{rule.table_name}"'
                        f' on line {rule.line_number}: "{rule.line}"'
                    )
        return rules
