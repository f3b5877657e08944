# Core package: configuration, data model, persistence and health
