"""Dependency resolution through the bender tool and editing of ``[dependencies]``."""