import logging

logger = logging.getLogger(__name__)


async def create_tables(db):
    """Create tables for the emergency response application"""
    schema_sql = """
        -- Users table: reporters, volunteers and admins
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            user_type VARCHAR(20) NOT NULL CHECK (user_type IN ('user', 'volunteer', 'admin')) DEFAULT 'user',
            is_available BOOLEAN NOT NULL DEFAULT TRUE,
            fcm_token TEXT,
            contact_number VARCHAR(30),
            google_id VARCHAR(255),
            profile_picture TEXT,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );

        -- Emergencies table: reported emergencies and their lifecycle
        CREATE TABLE IF NOT EXISTS emergencies (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            emergency_type VARCHAR(50) NOT NULL CHECK (emergency_type IN (
                'Medical Emergency', 'Accident', 'Flood', 'Fire',
                'Building Collapse', 'Elderly Assistance', 'Other')),
            description VARCHAR(500) NOT NULL,
            urgency VARCHAR(20) NOT NULL CHECK (urgency IN ('low', 'medium', 'high', 'critical')) DEFAULT 'medium',
            location_lon DOUBLE PRECISION NOT NULL CHECK (location_lon BETWEEN -180 AND 180),
            location_lat DOUBLE PRECISION NOT NULL CHECK (location_lat BETWEEN -90 AND 90),
            location_address TEXT,
            contact_number VARCHAR(30),
            status VARCHAR(20) NOT NULL CHECK (status IN ('pending', 'assigned', 'in-progress', 'resolved', 'cancelled')) DEFAULT 'pending',
            assigned_volunteers UUID[] NOT NULL DEFAULT '{}',
            ai_classification JSONB,
            response_time INTEGER,
            resolved_at TIMESTAMP WITH TIME ZONE,
            notes JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );

        -- Notifications table: one durable record per recipient per event
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(30) NOT NULL CHECK (type IN ('new_emergency', 'volunteer_assigned', 'status_update', 'emergency_resolved')),
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            emergency_id UUID REFERENCES emergencies(id) ON DELETE SET NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );

        -- Location index backing the nearby bounding-box query
        CREATE INDEX IF NOT EXISTS idx_emergencies_location ON emergencies (location_lat, location_lon);

        -- Indexes for frequently queried fields
        CREATE INDEX IF NOT EXISTS idx_emergencies_status ON emergencies (status);
        CREATE INDEX IF NOT EXISTS idx_emergencies_urgency ON emergencies (urgency);
        CREATE INDEX IF NOT EXISTS idx_emergencies_user_id ON emergencies (user_id);
        CREATE INDEX IF NOT EXISTS idx_emergencies_volunteers ON emergencies USING GIN (assigned_volunteers);
        CREATE INDEX IF NOT EXISTS idx_users_user_type ON users (user_type);
        CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications (user_id, created_at DESC);
    """
    try:
        async with db.connection() as conn:
            async with conn.transaction():
                await conn.execute(schema_sql)
                logger.info("Database tables and indexes created successfully.")
    except Exception as e:
        logger.error(f"Error creating tables: {str(e)}")
        raise
